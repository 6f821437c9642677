"""Setup script for fitsync CLI tool."""

from setuptools import setup

setup(
    name="fitsync-cli",
    version="0.1.0",
    description="FitSync CLI - Fitbit weight and body-fat sync tool",
    py_modules=["fitsync"],
    packages=["fitsync_core", "fitsync_cloud_connector"],
    package_dir={
        "fitsync_core": "libs/py-sync-core/fitsync_core",
        "fitsync_cloud_connector": "libs/py-cloud-connector/fitsync_cloud_connector",
    },
    install_requires=[
        "typer[all]>=0.9.0",
        "rich>=13.0.0",
        "httpx>=0.27.0",
        "python-dotenv>=1.0.0",
        # Dependencies from py-sync-core and py-cloud-connector
        "pydantic>=2.0.0",
        "boto3>=1.34.0",
        "cryptography>=42.0.0",
        "python-dateutil>=2.8.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=4.1.0",
            "moto[secretsmanager]>=5.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fitsync=fitsync:app",
        ],
    },
    python_requires=">=3.11",
)
