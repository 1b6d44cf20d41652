"""regtags — container registry inspection CLI."""
