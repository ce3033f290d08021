"""Build callrelay package."""
import setuptools

with open('README.md') as f:
    long_desc = f.read()

setuptools.setup(
    name='callrelay',
    version='0.1.0',
    description='WebRTC signaling relay for two-party call setup',
    long_description=long_desc,
    long_description_content_type='text/markdown',
    packages=setuptools.find_packages(include=['callrelay', 'callrelay.*']),
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: Apache Software License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.9',
    install_requires=[
        'click',
        'pydantic>=2',
        'tomli ; python_version<"3.11"',
        'typing-extensions>=4.3.0 ; python_version<"3.11"',
        'websockets>=14.0',
    ],
    extras_require={
        'dev': [
            'coverage',
            'cryptography',
            'mypy',
            'pre-commit',
            'pytest',
            'pytest-asyncio>=0.23.0',
            'pytest-cov',
            'pytest-timeout',
        ],
    },
    entry_points={
        'console_scripts': [
            'callrelay-server=callrelay.run:cli',
        ],
    },
)
