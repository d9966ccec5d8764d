"""Code generation: Ripper-shaped trees -> grumpy Go source."""
