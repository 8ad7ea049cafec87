from setuptools import setup, find_packages

setup(
    name="fitquest",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "fastapi",
        "uvicorn",
        "redis>=5.0.1",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "websockets",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
