from setuptools import setup, find_packages

setup(
    name="pickup_payments",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "Flask>=3.1.1",
        "mysql-connector-python>=8.1.0",
        "requests>=2.31.0",
        "python-dotenv>=1.1.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
    description="PayPal subscriptions, boost payments and webhook reconciliation for the pickup games app",
    keywords="payment, paypal, subscriptions, webhooks, flask",
    url="",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
    ],
    python_requires=">=3.8",
)
