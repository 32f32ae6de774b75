[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chainpallets"
version = "0.1.0"
description = "In-memory NFT auction and capsule pallets with balances, claims, deadlines and transactional dispatch"
requires-python = ">=3.10"
dependencies = []
keywords = ["nft", "auction", "capsule", "ledger", "blockchain", "simulation"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["chainpallets"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
