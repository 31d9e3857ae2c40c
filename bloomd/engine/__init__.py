"""Protocol engine: wire codec, block parser and connection"""
