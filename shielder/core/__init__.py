"""Core shielder client components"""
