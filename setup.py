"""Setup script for oidc-sign."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="oidc-sign",
    version="0.1.0",
    description="Keyless artifact signing with OIDC, Fulcio and Rekor",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "cryptography>=42.0.0",
        "PyYAML>=6.0",
        "requests>=2.31.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-mock>=3.10",
            "responses>=0.23",
            "PyJWT>=2.8",
            "freezegun>=1.2",
        ],
    },
    entry_points={
        "console_scripts": [
            "oidc-sign=oidcsign.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
