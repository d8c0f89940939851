"""
GBx Link Command-Line Interface
===============================

This package provides the command-line tool for the cartridge reader:

- **gbxlink**: header, ROM/RAM dump and RAM restore over serial

The tool is a Click-based CLI application with help for every command
and consistent exit codes (see `gbx_link.cli.errors`).
"""

__all__ = ["gbxlink"]
