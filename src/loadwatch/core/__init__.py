"""UI-agnostic core: phases, categories, store, listeners, timers and job runner."""
