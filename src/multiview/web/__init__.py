"""HTTP surface for the multiview grid."""
