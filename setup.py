"""
agentrelay - Setup Configuration

An agent orchestration runtime: a turn-driving run loop with handoffs,
streamed model responses, context-window management, tool guardrails and
per-session tool contexts.

License: Apache-2.0
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Core dependencies
core_deps = [
    # Framework core
    "pydantic>=2.11.9",
    "requests>=2.32.3",
    "aiohttp>=3.12.15",
    # Logging
    "python-json-logger>=2.0.7",  # v2.x (v3 requires testing)
    # Validation
    "jsonschema>=4.23.0",
]

# Development dependencies
dev_deps = [
    # Testing
    "pytest>=8.4.1",
    "pytest-asyncio>=1.0.0",
    "pytest-mock>=3.14.1",
    "pytest-cov>=6.2.1",
    # Code quality
    "black>=25.0.0",
    "flake8>=7.1.0",
    "mypy>=1.13.0",
]

setup(
    name="agentrelay",
    version="0.1.0",

    # Package description
    description="An agent orchestration runtime with handoffs, streaming, context windows and tool guardrails",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # Package discovery
    packages=find_packages(where="src"),
    package_dir={"": "src"},

    # Python version requirement
    python_requires=">=3.10",

    # Dependencies
    install_requires=core_deps,

    # Optional dependencies (extras)
    extras_require={
        "core": core_deps,

        # Development: testing + code quality
        "dev": core_deps + dev_deps,
        "test": dev_deps[:4],
    },

    # PyPI classifiers
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Framework :: AsyncIO",
    ],

    # Keywords for PyPI search
    keywords=[
        "ai", "agents", "llm", "orchestration", "handoff",
        "streaming", "sse", "context-window", "guardrails",
        "tools", "agent-framework",
    ],

    # License
    license="Apache-2.0",

    include_package_data=True,
    zip_safe=False,
)
