"""
Setup configuration for neural-resize
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="neural-resize",
    version="1.0.0",
    description="Image decoding and 2x neural upscaling on ONNX Runtime",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Multimedia :: Graphics",
        "Topic :: Scientific/Engineering :: Image Processing",
    ],
    python_requires=">=3.9",
    install_requires=[
        "onnxruntime>=1.17.0",
        "opencv-python>=4.10.0",
        "numpy>=1.26.0",
        "Pillow>=10.1.0",
        "python-dotenv>=1.0.1",
    ],
    extras_require={
        "dev": [
            "pytest>=8.3.3,<9.1",
            "pytest-cov>=6.0.0",
            "black>=24.10.0",
            "flake8>=7.1.1",
            "mypy>=1.13.0",
        ],
        "test": [
            "pytest>=8.3.3,<9.1",
            "onnx>=1.15.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "neural-resize=neural_resize.cli:main",
        ],
    },
)
