from setuptools import setup, find_packages

setup(
    name="apia",
    version="0.1.0",
    packages=find_packages(include=["apia", "apia.*"]),
    package_data={"apia": ["condition.lark"]},
    install_requires=[
        "lark",
        "pydantic>=2.0",
        "networkx>=3.0",
        "loguru>=0.7",
        "httpx>=0.24",
        "opentelemetry-api",
        "opentelemetry-sdk",
    ],
    extras_require={
        "tests": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "apia=apia.cli:main",
        ],
    },
    python_requires=">=3.10",
)
