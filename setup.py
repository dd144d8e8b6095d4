from setuptools import setup, find_packages
import re
from pathlib import Path


def read_readme():
    this_directory = Path(__file__).parent
    readme_file = this_directory / 'README.md'
    if readme_file.exists():
        return readme_file.read_text(encoding='utf-8')
    return ""

def get_version():
    init_file = Path(__file__).parent / 'pgsql_plugin' / '__init__.py'
    if init_file.exists():
        match = re.search(r'__version__\s*=\s*["\']([^"\']+)["\']', init_file.read_text())
        if match:
            return match.group(1)
    return "1.1.0"


setup(
    name="pgsql-plugin",
    version=get_version(),
    author="pgsql-plugin contributors",
    description="PostgreSQL query and command plugin for no-code workflow engines.",
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    packages=find_packages(include=['pgsql_plugin', 'pgsql_plugin.*']),
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "psycopg[binary]>=3.1",
        "pydantic>=2.5",
        "typer>=0.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.4,<9",
            "pytest-asyncio>=0.21",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Database",
    ],
    keywords="postgresql plugin workflow sql psycopg",
    entry_points={
        'console_scripts': [
            'pgsql-plugin=pgsql_plugin.cli:cli',
        ],
    },
)
