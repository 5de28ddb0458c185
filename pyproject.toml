[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pasvftp"
version = "0.1.0"
description = "A small passive-mode file transfer server and client built on a reactor-style TCP networking library"
requires-python = ">=3.10"
dependencies = []
keywords = ["file transfer", "passive mode", "tcp", "reactor", "event loop", "networking"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: File Transfer Protocol (FTP)",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
pasvftp-server = "pasvftp.server:main"
pasvftp-client = "pasvftp.client:main"

[tool.hatch.build.targets.wheel]
packages = ["pasvftp"]

[tool.pytest.ini_options]
addopts = "-ra"
