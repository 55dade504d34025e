"""CSS styles for the TUI.

Hides layout and styling decisions from the application logic.
Uses Textual CSS features: nesting, pseudo-classes, variables.
"""

APP_CSS = """
Screen {
    layout: vertical;
    background: $background;
}

/* ============================================
   Chat History - Conversation Display
   ============================================ */
#chat-history {
    height: 1fr;
    background: $panel;
    border: round $primary 60%;
    border-title-color: $primary;
    border-title-style: bold;
    border-title-align: left;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;
    scrollbar-gutter: stable;

    &:focus-within {
        border: round $primary;
    }

    &.streaming {
        border: round $accent;
        border-title-color: $accent;
    }
}

.turn {
    width: 100%;
    height: auto;
    margin: 0 0 1 0;
    padding: 0 1;
}

.turn-header {
    height: auto;
    text-style: bold;
}

.turn-content {
    height: auto;
}

.turn-note {
    height: auto;
    text-style: italic;
    color: $text-muted;
}

.user-turn {
    border-left: tall $primary;
    background: $primary 6%;

    & .turn-header {
        color: $primary;
    }
}

.assistant-turn {
    border-left: tall $secondary;
    background: $secondary 6%;

    & .turn-header {
        color: $secondary;
    }
}

.system-turn {
    border-left: tall $foreground 40%;

    & .turn-header {
        color: $text-muted;
    }
}

.assistant-turn.-failed {
    border-left: tall $error;

    & .turn-note {
        color: $error;
    }
}

.assistant-turn.-cancelled {
    border-left: tall $warning;

    & .turn-note {
        color: $warning;
    }
}

/* ============================================
   Debug/Log Panel
   ============================================ */
#debug-panel {
    height: auto;
    min-height: 6;
    max-height: 12;
    background: $panel;
    border: round $warning 60%;
    border-title-color: $warning;
    border-title-style: bold;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;
    overflow-y: scroll;
    overflow-x: auto;
}

/* ============================================
   Bottom Bar - Status + Input
   ============================================ */
#bottom-bar {
    height: auto;
    padding: 0 1;
    background: $panel;
    border-top: solid $border;
}

#status {
    height: 1;
    padding: 0 1;
    background: $surface;
    color: $foreground;
}

ChatInputBar {
    height: 5;
    border: round $primary 60%;
    background: $panel;

    &:focus-within {
        border: round $primary;
    }
}

#chat-input {
    width: 1fr;
    height: 100%;
    border: none;
    padding: 0 1;
    background: transparent;
}

#send-btn {
    width: 10;
    height: 100%;
    margin: 0 0 0 1;
    min-width: 8;
    border: tall $success;
    background: $success;
    color: $background;
    text-style: bold;

    &:hover {
        background: $success-lighten-1;
    }
}

Toast {
    background: $surface;
    border: tall $border;
    padding: 0 1;

    &.-information {
        border: tall $primary;
    }

    &.-warning {
        border: tall $warning;
    }

    &.-error {
        border: tall $error;
    }
}

Header {
    background: $panel;
    color: $foreground;
    height: 1;
}

Footer {
    background: $panel;
}
"""
