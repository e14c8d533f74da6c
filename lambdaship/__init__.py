"""Cross-compile, package and publish Rust binaries to AWS Lambda."""

__version__ = "0.3.0"
