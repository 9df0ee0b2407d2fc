from setuptools import setup, find_packages

setup(
    name="trustoracle",
    version="0.1.0",
    description="ERC-8004 agent trust oracle: paid score and risk reports behind x402",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "slowapi>=0.1.9",
        "python-json-logger>=3.1",
        "httpx>=0.27",
        "uvicorn>=0.27",
        "web3>=6.15",
    ],
    extras_require={
        "x402": ["x402>=0.2,<1", "cdp-sdk>=1.0"],
        "test": ["pytest>=7.0"],
        "dev": ["pytest>=7.0"],
    },
    entry_points={"console_scripts": ["trustoracle=trustoracle.cli:main"]},
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Framework :: FastAPI",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
        "Programming Language :: Python :: 3",
    ],
    keywords="agent trust reputation erc-8004 x402 oracle",
)
