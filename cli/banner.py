"""ASCII art banner for the Sweeper CLI."""

BANNER = r"""
  ____
 / ___|_      _____  ___ _ __   ___ _ __
 \___ \ \ /\ / / _ \/ _ \ '_ \ / _ \ '__|
  ___) \ V  V /  __/  __/ |_) |  __/ |
 |____/ \_/\_/ \___|\___| .__/ \___|_|
                        |_|
"""

TAGLINE = "Scheduled RAM, disk and Defender maintenance"


def print_banner() -> None:
    """Print the banner and tagline."""
    print(BANNER)
    print(f"  {TAGLINE}")
    print()
