from setuptools import find_packages, setup

setup(
    name="notebot",
    version="0.1.0",
    description="Rate-limited Misskey note posting for misskey-notebot",
    packages=find_packages(),
    python_requires=">=3.10",
    install_requires=[
        "SQLAlchemy>=2.0",
        "httpx>=0.27",
        "APScheduler>=3.10,<4",
    ],
    extras_require={"test": ["pytest>=8.0"]},
)
