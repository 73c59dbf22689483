from setuptools import setup, find_packages

setup(
    name="instruction_context",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "requests",
        "pyyaml",
        # Local vector store (cosine similarity)
        "numpy>=1.24",
        "tqdm>=4.60",
    ],
    extras_require={
        # Semantic layer: OpenAI embeddings for the vector fallback
        "semantic": [
            "openai>=1.0",
        ],
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "instruction-context=instruction_context.cli:main",
        ],
    },
    python_requires=">=3.10",
    description="Per-turn instruction context assembly: keyword and vector "
                "topic detection plus priority-ordered prompt composition.",
)
