"""Trigger-condition-action automation for CRM and ERP events"""
