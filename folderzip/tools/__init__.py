"""
Command-line tools for folderzip.
"""
