"""
WebCompass Proxy - In-Memory Stores

Navigation history and the saved script library. Both live for the
process lifetime only; nothing is written to disk.
"""
