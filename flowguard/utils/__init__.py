from .json_extraction import ExtractionError, ExtractionResult, extract, try_extract

__all__ = ['ExtractionError', 'ExtractionResult', 'extract', 'try_extract']
