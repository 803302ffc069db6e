"""querystream command-line interface."""
