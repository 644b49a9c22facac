"""Payments and their allocation to sales invoices"""
