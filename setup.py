from setuptools import setup

version = '0.1'

with open("README.md", "r", encoding="utf-8") as f:
    long_descr = f.read()

setup(
    name='pyems',
    packages=['pyems'],
    py_modules=['main'],
    version=version,
    license='Apache 2.0',
    description='Bridge Event Management Software (EMS) to a Biamp Tesira DSP',
    long_description=long_descr,
    long_description_content_type='text/markdown',
    author='johnno',
    author_email='johnno@example.com',
    url='https://github.com/johnno/pyems',
    download_url=f'https://github.com/johnno/pyems/archive/{version}.tar.gz',
    keywords=['EMS', 'Biamp', 'Tesira', 'AV control'],
    python_requires='>=3.10',
    install_requires=[
        "aiohttp>=3.8.3",
        "asyncssh>=2.13.0"
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21"
        ]
    },
    entry_points={
        "console_scripts": ["pyems=main:main"]
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Topic :: Multimedia :: Sound/Audio',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python :: 3.10'
    ],
)
