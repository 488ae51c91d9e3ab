from setuptools import setup


setup(
    name="ledger-doctor",
    version="0.1.0",
    description="Local structure checks and presentation restore for grouped financial ledger workbooks",
    packages=["ledger_doctor"],
    python_requires=">=3.9",
    install_requires=[
        "openpyxl",
        "pandas",
        "streamlit",
        "requests",
    ],
    entry_points={
        "console_scripts": [
            "ledger-doctor=ledger_doctor.cli:main",
        ]
    },
)
