import importlib.util
from setuptools import setup, find_packages


_spec = importlib.util.spec_from_file_location('roughscape.version',
                                               'roughscape/version.py')
version = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(version)

with open('README.md', 'r') as fdesc:
    long_description = fdesc.read()

if __name__ == '__main__':
    setup(
        name='roughscape',
        version=version.version,
        description='Sethares roughness landscapes for timbre and tuning analysis',
        long_description=long_description,
        long_description_content_type='text/markdown',
        license='ISC',
        packages=find_packages(exclude=['tests', 'tests.*']),
        package_data={'roughscape': ['py.typed', '*.pyi', 'util/*.pyi']},
        python_requires='>=3.7',
        install_requires=[
            'numpy>=1.20.3',
            'scipy>=1.2.0',
            'numba>=0.51.0',
            'joblib>=0.14',
            'decorator>=4.3.0',
            'typing_extensions>=4.1.1',
            'lazy_loader>=0.1',
        ],
        extras_require={
            'tests': [
                'pytest',
                'pytest-cov',
            ],
        },
        classifiers=[
            'License :: OSI Approved :: ISC License (ISCL)',
            'Programming Language :: Python',
            'Programming Language :: Python :: 3',
            'Topic :: Multimedia :: Sound/Audio :: Analysis',
            'Topic :: Scientific/Engineering',
        ],
    )
