"""Classification and folder-tree resolution for ingested audio files."""
