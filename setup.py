"""Setup file for development installation."""

from setuptools import setup, find_namespace_packages

setup(
    name="agent-chat",
    version="0.1.0",
    description="Chat turn orchestration for configurable AI customer-service agents",
    packages=find_namespace_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.5",
        "structlog>=23.1",
        "httpx>=0.27",
        "sqlalchemy[asyncio]>=2.0",
        "aiosqlite>=0.19",
        "prometheus-client>=0.19",
        "opentelemetry-instrumentation-fastapi>=0.45b0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
)
