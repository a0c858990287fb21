#!/usr/bin/env python3

from setuptools import find_packages, setup


if __name__ == "__main__":
	setup(
		name = "ContentPipeline",
		version = "0.1.0",
		description = "Type-directed content loading pipeline with download and artifact caching",
		packages = find_packages(include=["content_pipeline", "content_pipeline.*"]),
		python_requires = ">=3.8",
		install_requires = [
			"httpx>=0.23",
			"loguru>=0.6",
			"python-dotenv>=0.19",
			"PyYAML>=6.0",
		],
		extras_require = {
			"test": ["pytest>=7"],
		},
	)
