"""SOFA HRIR import: layout detection, grid mapping, onset and magnitude analysis"""

__version__ = "0.1.0"
