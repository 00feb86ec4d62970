"""Generation components: model selection, resilient invocation, prompts and parsing."""
