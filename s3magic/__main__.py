"""Module entry point for the s3magic command line."""
from .cli import main


if __name__ == "__main__":
    main()
