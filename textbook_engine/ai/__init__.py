"""Language-model access: retrying HTTP calls, prompts, outline and section generation."""
