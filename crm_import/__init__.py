"""CRM bulk import pipeline: CSV upload -> field mapping -> preview -> batch import."""

__version__ = "0.1.0"
