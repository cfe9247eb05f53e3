"""Command-line interface for keyless signing."""

import sys

import click

from . import __version__
from .ceremony import CeremonyLog
from .config import ConfigError, SigningConfig, load_config, load_default_config
from .crypto import extract_public_key
from .errors import SigningError
from .pipeline import SigningPipeline


def _load_signing_config(config_path):
    if config_path:
        signing_config = load_config(config_path)
        click.echo(f"Loaded config: {config_path}")
    else:
        signing_config = load_default_config()
        if signing_config:
            click.echo("Loaded default config: .signing/config.yaml")
        else:
            signing_config = SigningConfig({})
    return signing_config.apply_environment_overrides()


@click.command()
@click.version_option(version=__version__)
@click.option("-s", "--sign", "do_sign", is_flag=True, help="OIDC sign an artifact")
@click.option(
    "-i", "--in-file", type=click.Path(exists=True, dir_okay=False), help="File to sign"
)
@click.option("-o", "--sig-out", type=click.Path(dir_okay=False), help="Signature output path")
@click.option(
    "-c", "--cert-out", type=click.Path(dir_okay=False), help="Signing certificate output path"
)
@click.option(
    "-e",
    "--extract",
    type=click.Path(exists=True, dir_okay=False),
    help="Extract the public key from a signing certificate file",
)
@click.option(
    "--config",
    type=click.Path(exists=True),
    help="Configuration file (YAML). Defaults to .signing/config.yaml if present.",
)
@click.option("--fulcio-url", help="Certificate authority URL")
@click.option("--rekor-url", help="Transparency log URL")
@click.option("--oidc-issuer", help="OIDC issuer URL")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds to wait for browser authentication",
)
@click.option(
    "--ceremony-log",
    type=click.Path(dir_okay=False),
    help="Write a JSON ceremony log of the signing run",
)
def main(
    do_sign,
    in_file,
    sig_out,
    cert_out,
    extract,
    config,
    fulcio_url,
    rekor_url,
    oidc_issuer,
    timeout,
    ceremony_log,
):
    """Keyless artifact signing with OIDC, a short-lived certificate and a transparency log."""
    if not do_sign and not extract:
        raise click.UsageError("Nothing to do: pass --sign or --extract")

    if do_sign:
        missing = [
            flag
            for flag, value in (
                ("--in-file", in_file),
                ("--sig-out", sig_out),
                ("--cert-out", cert_out),
            )
            if not value
        ]
        if missing:
            raise click.UsageError(f"--sign requires {', '.join(missing)}")

    if extract:
        with open(extract, "rb") as f:
            cert_data = f.read()
        try:
            public_key = extract_public_key(cert_data)
        except SigningError as e:
            click.echo(f"❌ Extraction failed: {e}", err=True)
            sys.exit(1)
        click.echo("Extracted public key from signing certificate file...\n")
        click.echo(public_key)

    if not do_sign:
        return

    try:
        signing_config = _load_signing_config(config).merge_with_cli_args(
            fulcio_url=fulcio_url,
            rekor_url=rekor_url,
            oidc_issuer=oidc_issuer,
            auth_timeout=timeout,
        )
    except (FileNotFoundError, ConfigError) as e:
        click.echo(f"❌ Config error: {e}", err=True)
        sys.exit(1)

    pipeline = SigningPipeline.from_config(signing_config)

    click.echo(f"Signing artifact: {in_file}")
    try:
        result = pipeline.run(in_file, sig_out, cert_out)
    except SigningError as e:
        click.echo(f"❌ {e.stage or 'signing'}: {type(e).__name__}: {e}", err=True)
        sys.exit(1)

    if ceremony_log:
        log_path = CeremonyLog(in_file, result).save(ceremony_log)
        click.echo(f"✅ Ceremony log saved: {log_path}")

    click.echo("\n✅ Signing complete!")
    click.echo(f"Artifact SHA256: {result.digest}")
    click.echo(f"Signature: {result.signature_path}")
    click.echo(f"Certificate: {result.certificate_path}")
    click.echo(f"Log entry: {result.log_entry.uuid}")


if __name__ == "__main__":
    main()
