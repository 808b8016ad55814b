"""Progress projection and live change propagation."""
