"""Pipeline building blocks: state, gates, config mutation, image generation and orchestration."""
