"""Client-held multi-step submission flows"""
