"""Reasoning engine access: transcript, prompts and the chat client."""
