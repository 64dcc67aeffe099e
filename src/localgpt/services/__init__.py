"""Provider clients, stream decoding and action orchestration."""
