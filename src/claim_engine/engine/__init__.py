"""Risk engine: hard gate, soft penalties and decision mapping."""
