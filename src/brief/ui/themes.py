"""Theme definitions for the TUI.

This module hides the design decisions about:
- Color palettes and visual appearance
- Theme variables (borders, scrollbars, footer)

To add a new theme, define it here and register it in the app.
"""

from textual.theme import Theme

# Phosphor-green CRT palette
BRIEF_CRT = Theme(
    name="brief-crt",
    primary="#33ff66",      # Phosphor green - main accent
    secondary="#7fd4a0",    # Soft green - assistant turns
    accent="#d6ff5c",       # Lime - highlights
    foreground="#c8f7d0",   # Pale green text
    background="#050a06",   # Near-black
    success="#33ff66",
    warning="#ffcc4d",      # Amber - cancelled / truncated
    error="#ff5f5f",        # Red - failed turns
    surface="#0b140d",
    panel="#08100a",
    dark=True,
    variables={
        "block-cursor-foreground": "#050a06",
        "block-cursor-background": "#33ff66",
        "block-cursor-text-style": "bold",
        "input-cursor-background": "#33ff66",
        "input-cursor-foreground": "#050a06",
        "input-selection-background": "#33ff66 30%",

        "border": "#1f5c2e",
        "border-blurred": "#143d1f",

        "scrollbar": "#143d1f",
        "scrollbar-hover": "#1f5c2e",
        "scrollbar-active": "#33ff66",
        "scrollbar-background": "#08100a",
        "scrollbar-corner-color": "#08100a",

        "footer-foreground": "#7fd4a0",
        "footer-background": "#050a06",
        "footer-key-foreground": "#d6ff5c",
        "footer-key-background": "#143d1f",
        "footer-description-foreground": "#7fd4a0",

        "text-muted": "#4f8a5e",
        "text-disabled": "#2b4d33",
    },
)
