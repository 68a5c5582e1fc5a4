"""
Setup configuration for fv1block, the FV-1 block-graph compiler and assembler.
"""

from setuptools import setup, find_packages
import os


# Read version from package
def get_version():
    """Extract version from package __init__.py"""
    version_file = os.path.join(os.path.dirname(__file__), "fv1block", "__init__.py")
    with open(version_file, "r") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip("\"'")
    return "0.1.0"


# Read long description from README
def get_long_description():
    """Read long description from README.md if available"""
    readme_path = os.path.join(os.path.dirname(__file__), "README.md")
    if os.path.exists(readme_path):
        with open(readme_path, "r", encoding="utf-8") as f:
            return f.read()
    return "Block-graph compiler and two-pass assembler for the FV-1 audio DSP"


setup(
    name="fv1block",
    version=get_version(),
    author="fv1block Developers",
    author_email="fv1block@example.com",
    description="Block-graph compiler and assembler for the FV-1 audio DSP",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests*", "examples*", "docs*"]),
    package_data={
        "fv1block.blocks": ["templates/*.atl"],
        "fv1block.codegen": ["templates/*.j2"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Multimedia :: Sound/Audio",
        "Topic :: Software Development :: Assemblers",
        "Topic :: Software Development :: Compilers",
    ],
    python_requires=">=3.8",
    install_requires=[
        "jinja2>=3.0",
        "pyyaml>=5.4",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov>=2.0",
            "black>=22.0",
            "isort>=5.0",
            "mypy>=0.900",
            "flake8>=4.0",
            "pre-commit>=2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fv1block-compile=fv1block.cli:compile_main",
            "fv1block-asm=fv1block.cli:assemble_main",
            "fv1block-info=fv1block.utils.info:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords="fv1, spin, dsp, audio, assembler, compiler, block-diagram",
)
