from setuptools import setup, find_packages

setup(
    name="edge-lc",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "kopf>=1.35.6",
        "kubernetes>=28.1.0",
        "pydantic>=2.5",
        "pydantic-settings[yaml]>=2.2",
        "PyYAML>=6.0",
        "pony>=0.7.17",
        "fastapi>=0.100",
        "uvicorn>=0.23",
        "click>=8.1.3",
        "tabulate>=0.9.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "edge-lc=edge_lc.cli:main",
        ],
    },
    python_requires=">=3.8",
)
