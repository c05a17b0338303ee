"""
Setup script for mongo-data project.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="mongo-data",
    version="1.0.0",
    packages=find_packages(include=["mongo_data", "mongo_data.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pymongo>=4.13",
        "tenacity>=8.2",
        "pydantic>=2.7",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
)
