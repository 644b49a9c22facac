"""Tenant website builder: sites, pages and the public page endpoint"""
