from setuptools import setup, find_packages

setup(
    name="snapaudit",
    version="0.1.0",
    description="Snapshot retention audit and reporting for virtualization endpoints",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={
        "snapaudit": ["default.yaml", "templates/*.j2"],
    },
    install_requires=[
        "click>=8.0.0",
        "PyYAML>=6.0",
        "Jinja2>=3.0",
        "pyvmomi>=8.0.1.0",
        "requests>=2.28",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "snapaudit=snapaudit.cli:main",
        ],
    },
    python_requires=">=3.8",
)
