from setuptools import setup, find_packages


setup(
    name="ferry",
    version="0.1",
    packages=find_packages(include=["ferry", "ferry.*"]),
    description="Stream files to and from HTTP blob storage with optional tar, gzip and AES encryption.",
    author="vercingetorx",
    install_requires=[
        "pycryptodomex>=3.23.0",
        "requests>=2.31.0",
    ],
    entry_points={
        "console_scripts": [
            "ferry=ferry.cli:main",
        ]
    },
)
