from setuptools import setup, find_packages

setup(
    name="seam_jsonrpc",
    version="0.1.0",
    description="Seam JSON-RPC - transport-agnostic JSON-RPC 2.0 client and server for asyncio",
    author="Oppie.xyz Team",
    packages=find_packages(include=["seam_jsonrpc", "seam_jsonrpc.*"]),
    install_requires=[
        "protobuf>=3.19.0",
        "pyzmq>=24.0.0",
        "opentelemetry-api>=1.14.0",
        "opentelemetry-sdk>=1.14.0",
        "opentelemetry-exporter-otlp>=1.14.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov",
            "black",
            "isort",
            "pylint",
        ],
    },
    python_requires=">=3.9",
)
