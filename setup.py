#!/usr/bin/env -S python3 -B -u
"""
Setup script for rtcemu package - RTC Emulator
"""

from setuptools import setup, find_packages
import os

# Read the README file for long description
def read_readme():
    """Read README.md for package long description."""
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    if os.path.exists(readme_path):
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    return "RTC Emulator - Local network lab with per-node impairments"

# Read requirements from requirements.txt
def read_requirements():
    """Read requirements from requirements.txt file."""
    requirements_path = os.path.join(os.path.dirname(__file__), 'requirements.txt')
    if os.path.exists(requirements_path):
        with open(requirements_path, 'r', encoding='utf-8') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    return []

# Define package metadata
setup(
    name='rtcemu',
    version='0.3.0',
    description='RTC Emulator - Local multi-node network lab with delay, jitter, loss and bandwidth impairments',
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    license='MIT',

    # Package structure - use rtcemu namespace
    packages=['rtcemu'] + ['rtcemu.' + pkg for pkg in find_packages(where='src')],
    package_dir={
        'rtcemu': 'src',
    },

    # Python version requirement
    python_requires='>=3.8',

    # Dependencies from requirements.txt
    install_requires=read_requirements(),

    # Optional dependencies
    extras_require={
        'dev': [
            'pytest>=6.0.0',
            'pytest-cov>=2.0.0',
            'flake8>=3.8.0',
        ],
    },

    # Entry points for command-line scripts
    entry_points={
        'console_scripts': [
            'rtcemu=rtcemu.shell.rtcemu_shell:main',
        ],
    },

    # Classification
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Networking',
        'Topic :: Software Development :: Testing',
    ],

    # Keywords
    keywords='netem networking namespace bridge impairment webrtc testing',
)
