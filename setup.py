from setuptools import setup, find_packages

setup(
    name="lotto_risk",
    version="1.0.0",
    description="Numbers-lottery risk & payout engine - per-number limits with tiered payout step-down",
    packages=find_packages(exclude=['tests', 'tests.*']),
    py_modules=['main', 'simulate_bets'],
    python_requires='>=3.9',
    install_requires=[
        'numpy>=1.24.0',
        'pandas>=2.0.0',
        'sqlalchemy>=2.0.0',
        'fastapi>=0.100.0',
        'pydantic>=2.0.0',
        'uvicorn>=0.23.0',
        'python-dateutil>=2.8.2',
    ],
    extras_require={
        'test': [
            'pytest>=7.0.0',
            'httpx>=0.24.0',
        ],
    },
)
