"""
Setup script for SSE Chat
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="sse-chat",
    version="0.3.0",
    author="SSE Chat Contributors",
    description="Branching LLM conversations streamed from Ollama over Server-Sent Events",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=['ssechat', 'ssechat.*']),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.8",
    install_requires=[
        "requests>=2.28",
        "flask>=2.2",
        "flask-cors>=3.0",
        "rich>=13.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "black>=23.0",
            "flake8>=6.0",
            "mypy>=1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ssechat=ssechat.cli:main",
        ],
    },
)
