"""Client-side synchronization layer for shared sessions."""
