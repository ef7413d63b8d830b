"""Package metadata and the trackdb console script."""

from setuptools import find_packages, setup

setup(
    name="trackdb",
    version="0.1.0",
    description="Persistent key-value record store with tracked-field secondary indexes",
    python_requires=">=3.11",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=[
        "click>=8.1",
    ],
    extras_require={
        "test": ["pytest>=8"],
    },
    entry_points={
        "console_scripts": [
            "trackdb=trackdb.cli:cli",
        ],
    },
)
