from setuptools import setup, find_packages


setup(
    name="partkit",
    version="0.1",
    packages=find_packages(include=["partkit", "partkit.*"]),
    description="Split files and directories into numbered, optionally encrypted zip parts and restore them.",
    author="vercingetorx",
    install_requires=[
        "pyzipper>=0.3.6",
        # AES backend used by pyzipper for WZ_AES parts
        "pycryptodomex>=3.23.0",
    ],
    entry_points={
        "console_scripts": [
            "partkit=partkit.cli:main",
        ]
    },
)
