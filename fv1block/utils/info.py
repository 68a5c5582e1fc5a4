"""
Package information utility.

Command-line utility printing the fv1block version, the versions of
its runtime dependencies and the registered block types.
"""

import platform
import sys
from importlib.metadata import version
from typing import Any, Dict

import fv1block
from fv1block.blocks.registry import get_registry


def get_system_info() -> Dict[str, Any]:
    """
    Get interpreter and dependency information.

    Returns:
        Dictionary containing system information
    """
    return {
        'python_version': sys.version,
        'platform': platform.platform(),
        'jinja2_version': version("jinja2"),
        'pyyaml_version': version("pyyaml"),
    }


def get_package_info() -> Dict[str, Any]:
    """
    Get fv1block-specific information.

    Returns:
        Dictionary containing version and block catalogue
    """
    registry = get_registry()
    return {
        'version': fv1block.__version__,
        'author': fv1block.__author__,
        'block_types': {
            category: [definition.type for definition in definitions]
            for category, definitions in registry.by_category().items()
        },
    }


def print_info() -> None:
    """Print formatted information about fv1block and the system."""
    print("fv1block FV-1 Block Compiler")
    print("=" * 40)

    package_info = get_package_info()
    print(f"\nfv1block Version: {package_info['version']}")
    print(f"Author: {package_info['author']}")

    system_info = get_system_info()
    print(f"\nPython Version: {system_info['python_version'].split()[0]}")
    print(f"Platform: {system_info['platform']}")
    print(f"Jinja2 Version: {system_info['jinja2_version']}")
    print(f"PyYAML Version: {system_info['pyyaml_version']}")

    print("\nBlock Types:")
    for category, types in sorted(package_info['block_types'].items()):
        print(f"  {category}: {', '.join(sorted(types))}")


def main() -> None:
    """Main entry point for the fv1block-info command."""
    try:
        print_info()
    except fv1block.Fv1Error as e:
        print(f"Error getting package information: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
