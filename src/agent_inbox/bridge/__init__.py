"""Browser bridge: framed JSON messages translated into task updates."""
