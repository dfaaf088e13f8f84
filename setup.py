from setuptools import setup, find_packages

setup(
    name="quizgen",
    version="0.1.0",
    packages=find_packages(include=["quizgen", "quizgen.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "starlette",
        "pydantic>=2.7",
        "pydantic-settings>=2.7",
        "python-dotenv",
        "redis>=5.0",
        "httpx>=0.27",
        "uvicorn[standard]",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "fakeredis[lua]>=2.20",
        ],
    },
)
