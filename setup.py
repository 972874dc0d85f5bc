"""
Setup script for LAN Chat.
"""

from setuptools import setup, find_packages
import os


# Read the README file for long description
def read_readme():
    """Read README.md file."""
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    if os.path.exists(readme_path):
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    return "Local-network text chat server with UDP discovery and a console client."


def read_requirements(filename):
    """Read requirements from a requirements file."""
    requirements_path = os.path.join(os.path.dirname(__file__), filename)
    requirements = []
    if os.path.exists(requirements_path):
        with open(requirements_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    requirements.append(line)
    return requirements


setup(
    name="lan-chat",
    version="1.0.0",
    author="LAN Chat Development Team",
    description="Local-network text chat server with UDP discovery and a console client",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=['tests*']),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Communications :: Chat",
        "Topic :: System :: Networking",
    ],
    python_requires=">=3.8",
    install_requires=read_requirements('requirements.txt'),
    extras_require={
        "yaml": read_requirements('requirements-optional.txt'),
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "hypothesis>=6.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "lan-chat-server=lan_chat.server.main:main",
            "lan-chat-client=lan_chat.client.main:main",
        ],
    },
    keywords="chat, lan, networking, tcp, udp, discovery",
    zip_safe=False,
)
