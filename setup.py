import setuptools
import os

def read_readme():
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    try:
        with open(readme_path, encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        return "blobnet: operator graphs over a workspace of named blobs." # Fallback description

REQUIRED_PKGS = [
    "numpy",
]

EXTRAS_REQUIRED_PKGS = {
    "viz": ["graphviz"],
    "test": ["pytest", "autograd", "graphviz"],
    "examples": ["matplotlib", "scikit-learn", "tqdm"],
}

EXTRAS_REQUIRED_PKGS["all"] = list(set(sum(EXTRAS_REQUIRED_PKGS.values(), [])))

setuptools.setup(
    name="blobnet",
    version="0.1.0-dev",
    description="Operator-graph nets over a blob workspace, with the intro tutorial driver",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(
        where=".", include=("blobnet*",)
    ),
    install_requires=REQUIRED_PKGS,
    extras_require=EXTRAS_REQUIRED_PKGS,
    python_requires=">=3.11",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
)
