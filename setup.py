from setuptools import setup


setup(
    name="sheet-remedy",
    version="0.1.0",
    description="Column-by-column spreadsheet remediation with an embedded, replayable change log",
    packages=["sheet_remedy"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
        "anthropic",
        "rapidfuzz",
    ],
    entry_points={
        "console_scripts": [
            "sheet-remedy=sheet_remedy.cli:main",
        ]
    },
)
