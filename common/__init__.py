"""Constants, exceptions, byte helpers and logging shared by every package."""
