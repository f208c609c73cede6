"""
Setup script for the media session harness
"""
from setuptools import setup, find_packages

setup(
    name="media-session-harness",
    version="1.0.0",
    description="Browser-driven WebRTC record/playback validation harness",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"media_harness": ["static/*"]},
    python_requires=">=3.9",
    install_requires=[
        "aiofiles",
        "aiortc>=1.6",
        "av>=10.0",
        "fastapi",
        "numpy",
        "playwright",
        "pydantic>=2.0",
        "uvicorn",
    ],
    extras_require={
        "test": [
            "httpx",
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "media-harness=media_harness.__main__:main",
        ],
    },
)
