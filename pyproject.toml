[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gatewayproxy"
version = "0.1.0"
description = "Composable async proxy middlewares for API gateways: merging, shadowing, static data and request/response modifiers"
requires-python = ">=3.10"
dependencies = []
keywords = ["api-gateway", "proxy", "middleware", "backend", "merge", "asyncio"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Framework :: AsyncIO",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.hatch.build.targets.wheel]
packages = ["gatewayproxy"]

[tool.pytest.ini_options]
addopts = "-ra"
