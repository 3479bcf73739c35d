"""Garden Network: classroom network service for garden towers."""
