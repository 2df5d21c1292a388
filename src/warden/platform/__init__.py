"""What the moderation core needs from the chat platform, and the discord.py implementation of it."""
