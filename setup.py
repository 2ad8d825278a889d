#!/usr/bin/env python3
"""
Setup script for Parley
Real-time channel, presence and WebRTC signaling server
"""

from setuptools import setup

# Read README for long description
try:
    with open('README.md', 'r', encoding='utf-8') as f:
        long_description = f.read()
except FileNotFoundError:
    long_description = "Parley - real-time chat channels, voice presence and WebRTC signaling relay"

# Read requirements
try:
    with open('requirements.txt', 'r', encoding='utf-8') as f:
        requirements = [line.strip() for line in f if line.strip() and not line.startswith('#')]
except FileNotFoundError:
    requirements = []

setup(
    name='parley',
    version='1.0.0',
    description='Real-time chat channels, voice presence and WebRTC signaling relay',
    long_description=long_description,
    long_description_content_type='text/markdown',
    author='Parley Team',
    author_email='',
    license='MIT',

    py_modules=[
        'server',
        'client',
        'protocol',
        'models',
        'errors',
        'presence_registry',
        'room_index',
        'rate_limiter',
        'channel_policy',
        'broadcast',
        'signaling_relay',
        'lifecycle',
        'directory',
        'input_validator',
        'config_manager',
    ],

    # Dependencies
    install_requires=requirements,
    extras_require={
        'test': ['coverage'],
    },

    # Python version requirement
    python_requires='>=3.9',

    # Entry points for command-line scripts
    entry_points={
        'console_scripts': [
            'parley-server=server:main',
            'parley-client=client:main',
        ],
    },

    # Classification
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Topic :: Communications :: Chat',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Operating System :: OS Independent',
    ],

    # Keywords
    keywords='chat voice webrtc signaling websocket presence',
)
