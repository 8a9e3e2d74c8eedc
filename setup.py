"""Setup script for the plcmon package."""

from setuptools import find_packages, setup

setup(
    name="plcmon",
    version="0.1.0",
    description="PLC polling, InfluxDB storage and dashboard API",
    packages=find_packages(include=["plcmon", "plcmon.*"]),
    python_requires=">=3.10",
    install_requires=[
        "python-snap7>=2.0,<3",
        "influxdb>=5.3",
        "pyyaml",
        "python-dotenv",
        "aiohttp>=3.9",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-asyncio",
            "black",
            "isort",
            "mypy",
        ],
    },
    entry_points={
        "console_scripts": [
            "plcmon-collector=plcmon.collector:main",
        ],
    },
)
